"""
Document encoders, keyed by output extension.
"""

from pagedocx.plugins.word_export import plugin as word_export

ENCODERS = {
    word_export.PLUGIN_METADATA['extension']: word_export,
}


def get_encoder(extension='docx'):
    try:
        return ENCODERS[extension]
    except KeyError:
        raise ValueError(f"No encoder for '{extension}'. Available: {', '.join(sorted(ENCODERS))}")
