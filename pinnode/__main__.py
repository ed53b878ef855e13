from pinnode.cli import main

main()
