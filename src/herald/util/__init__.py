"""
Utility helpers for Herald.

- **logger.py**: Console and per-session file logging shared by every module.
- **format_utils.py**: Text helpers for notifications (truncation, durations, timestamps).
- **image_utils.py**: Loading background images from local uploads or remote URLs.
"""
