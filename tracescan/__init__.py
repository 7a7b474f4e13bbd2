"""TraceScan - QR scanning and product journey tracking."""
