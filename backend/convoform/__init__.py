"""
convoform - configuration lifecycle engine for AI-assisted conversational forms

This package contains:

- models/: the versioned conversation document and API models
- normalizer.py: load-time migration of stored documents
- mutations.py: pure edit operations over the document
- autosave.py: debounced persistence
- publish_controller.py: draft/live state and the dirty check
- preview.py: preview targeting and background visual resolution
- editor_session.py: one author editing one conversation
- main.py: reference forms and AI wording API (FastAPI)
"""
