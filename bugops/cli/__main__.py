from bugops.cli import main

main()
