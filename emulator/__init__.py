"""AKS access-control card reader emulator."""
