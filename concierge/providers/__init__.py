"""AI provider interfaces: language models and embeddings."""
