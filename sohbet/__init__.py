"""
Sohbet - a chat front-end for hosted language and speech models.

Relays typed text and recorded speech to the Hugging Face Inference API
and keeps a turn-by-turn transcript of the conversation.
"""

__version__ = "1.0.0"
