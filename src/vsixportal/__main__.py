from vsixportal.cli import main

main()
