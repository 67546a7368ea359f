"""
pagedocx - capture a rendered web page into a Word (.docx) snapshot.
"""

__version__ = "0.3.0"
