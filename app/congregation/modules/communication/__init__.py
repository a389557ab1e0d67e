"""
Communication module.

- Direct and group messages to members with per-recipient read state
- Congregation broadcasts to everyone, a group, or holders of a privilege
"""
