"""
channels — Notification delivery backends.

Each transport exposes:
    async send(to, message) → None   (raises DeliveryError on failure)

Transports deliver one message to one address. Fan-out, concurrency and
failure isolation live in the dispatcher.
"""
