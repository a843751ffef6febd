"""
Causerie

A conversational French practice partner featuring:
- Typed or spoken turns with speech-to-text
- Replies from a casual "French friend" persona
- Text-to-speech voices for every reply
- On-demand grammar checks of what the learner said
"""

__version__ = "0.1.0"
__app_name__ = "causerie"
