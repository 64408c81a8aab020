import re
from dataclasses import dataclass
from typing import List

DEFAULT_MAX_CHUNK_SIZE = 5000
DEFAULT_OVERLAP_SIZE = 200

HEADING_RE = re.compile(r"^#+\s", re.MULTILINE)

@dataclass
class DocumentChunk:
    text: str
    chunk_index: int
    chunk_total: int
    original_size: int

def _last_break(text: str, separator: str, end: int) -> int:
    """Index of the last separator starting at or before end, -1 if none"""
    return text.rfind(separator, 0, min(len(text), end + len(separator)))

def chunk_document(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    overlap_size: int = DEFAULT_OVERLAP_SIZE,
) -> List[DocumentChunk]:
    """
    Divide un documento en fragmentos para embeddings

    Corta preferentemente en un párrafo y, si no, en un salto de línea,
    siempre dentro de la segunda mitad de la ventana. Cada fragmento
    después del primero empieza con los últimos overlap_size caracteres
    del anterior.
    """
    trimmed = text.strip()

    if len(trimmed) <= max_chunk_size:
        return [DocumentChunk(text=trimmed, chunk_index=0, chunk_total=1, original_size=len(trimmed))]

    chunks: List[DocumentChunk] = []
    current = 0
    half_window = max_chunk_size / 2

    while current < len(trimmed):
        chunk_end = min(current + max_chunk_size, len(trimmed))

        paragraph_break = _last_break(trimmed, "\n\n", chunk_end)
        if paragraph_break > current and paragraph_break > chunk_end - half_window:
            chunk_end = paragraph_break
        else:
            line_break = _last_break(trimmed, "\n", chunk_end)
            if line_break > current and line_break > chunk_end - half_window:
                chunk_end = line_break

        chunk_text = trimmed[current:chunk_end].strip()
        if not chunk_text:
            current = chunk_end
            continue

        if chunks:
            previous = chunks[-1].text
            overlap = previous[max(0, len(previous) - overlap_size):]
            chunk_text = f"{overlap}\n\n{chunk_text}"

        chunks.append(DocumentChunk(
            text=chunk_text,
            chunk_index=len(chunks),
            chunk_total=0,
            original_size=len(trimmed),
        ))
        current = chunk_end

    for chunk in chunks:
        chunk.chunk_total = len(chunks)

    return chunks

def calculate_optimal_chunk_size(text: str, min_size: int = 2000, max_size: int = 5000) -> int:
    """Smaller chunks for heading-structured text, larger ones for dense prose"""
    has_structure = len(HEADING_RE.findall(text)) > 5

    lines = text.split("\n")
    avg_line_length = sum(len(line.strip()) for line in lines) / max(len(lines), 1)
    is_dense = avg_line_length > 80

    if has_structure and not is_dense:
        return min_size
    if is_dense:
        return max_size
    return int((min_size + max_size) / 2 + 0.5)
