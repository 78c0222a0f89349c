from repohealth.cli.main import main

main()
