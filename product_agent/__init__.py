"""Product availability agent: catalog matching, color checks and sourcing advice."""
