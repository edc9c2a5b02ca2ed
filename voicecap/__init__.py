"""Voice capture and transcription for a chat-bot voice gateway."""
