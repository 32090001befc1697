from cofacilitator.session.state import Bookmark, TranscriptState, clean_line

__all__ = ["Bookmark", "TranscriptState", "clean_line"]
