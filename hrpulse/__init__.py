"""HR performance SaaS API with subscription-tier feature gating."""
