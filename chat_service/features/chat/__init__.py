"""Durable conversation store: users, conversations, messages and read receipts."""
