"""DANUU-MD: WhatsApp auto-responder bot."""
