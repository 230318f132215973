"""Pool-side building blocks: facade, simulated collaborator, oracle ring, price math."""
