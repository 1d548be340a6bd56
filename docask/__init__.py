"""Mirror a documentation tree into a remote vector store and ask it questions."""

__version__ = "0.1.0"
