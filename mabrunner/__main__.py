from mabrunner.cli import main

main()
