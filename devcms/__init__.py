"""devcms: real-estate developer CMS backend with Realpad inventory sync."""
