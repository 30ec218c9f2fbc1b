"""Bridge layer between nixrm and the outside world.

Modules
-------
transport
    ``RemoteTransport`` Protocol with an SSH/SFTP backend (paramiko) and a
    local-filesystem backend.
nix
    Builds an installable and resolves its closure through the ``nix`` CLI.
launcher
    Hands control to the user's command on the remote host via ``ssh -t``.
"""
