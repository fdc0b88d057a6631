"""Assessment modules of the JLPT backend."""
