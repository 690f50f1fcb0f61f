class ChatAccumulator:
    """Concatenates content deltas into the full message text.

    No normalization or deduplication: the result is exactly the ordered
    concatenation of every delta appended so far.
    """

    def __init__(self) -> None:
        self._content = ""

    def append(self, delta: str) -> str:
        self._content += delta
        return self._content

    @property
    def content(self) -> str:
        return self._content
