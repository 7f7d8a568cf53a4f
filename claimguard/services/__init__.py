"""ClaimGuard services: verification pipeline and firewall."""
