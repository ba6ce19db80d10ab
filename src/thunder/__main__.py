from thunder.cli import main

main()
