"""heysme_server — FastAPI transport for the heysme orchestrator."""
