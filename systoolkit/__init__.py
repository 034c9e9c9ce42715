"""
systoolkit
----------
Terminal toolkit for Linux host administration: user accounts and
disk-space reports. Most actions wrap native Linux binaries (useradd,
userdel, du, find, lsblk, iostat) so account changes require root.
"""

__version__ = "1.0.0"
