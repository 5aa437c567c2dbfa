"""Domain model and orchestration: quoting, execution and recovery."""
