"""
Dictation Studio - record, transcribe, and polish your speech with AI.

A Python application that records audio, transcribes it on-device or with a
hosted AI model, and polishes the text using a configurable prompt.
"""

__version__ = "0.1.0"
__description__ = "Record, transcribe, and polish your speech with AI"
