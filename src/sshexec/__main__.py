from sshexec.cli import main

main()
