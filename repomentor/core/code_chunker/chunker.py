"""Line-aligned text chunker.

Packs whole lines into chunks of at most ``max_chars`` characters. A line
longer than the limit is cut into ``max_chars`` pieces, each packed like a
line of its own. Chunks are trimmed and whitespace-only chunks are dropped.
"""

from typing import List


class LineChunker:
    """Greedy line packer.

    Args:
        max_chars: Upper bound on chunk length in characters
    """

    def __init__(self, max_chars: int = 1000):
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars

    def split(self, text: str) -> List[str]:
        """Split ``text`` into trimmed, non-empty chunks in file order."""
        chunks: List[str] = []
        current = ""

        for piece in self._pieces(text):
            # +1 for the newline joining piece onto current
            if current and len(current) + 1 + len(piece) > self._max_chars:
                chunks.append(current.strip())
                current = piece
            else:
                current = f"{current}\n{piece}" if current else piece

        if current:
            chunks.append(current.strip())

        return [c for c in chunks if c]

    def _pieces(self, text: str):
        limit = self._max_chars
        for line in text.split("\n"):
            if len(line) <= limit:
                yield line
            else:
                for start in range(0, len(line), limit):
                    yield line[start:start + limit]
