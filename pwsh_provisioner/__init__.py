"""PowerShell provisioner — stage, upload and run build-time scripts on a remote target."""

__version__ = "0.1.0"
