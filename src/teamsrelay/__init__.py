"""Teams Relay - Microsoft Graph change notifications for Teams channel messages."""

__version__ = "0.1.0"
