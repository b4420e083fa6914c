"""External integrations: OpenAI synthesis and outbound webhooks."""
