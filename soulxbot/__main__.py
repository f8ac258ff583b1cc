from soulxbot.main import main

main()
