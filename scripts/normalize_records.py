import argparse
import asyncio
import json
import logging
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from nightreign_corpus.config import settings
from nightreign_corpus.core.errors import ModelLoadError
from nightreign_corpus.embeddings.generator import get_embedding_generator, dispose_embedding_generator
from nightreign_corpus.normalizer.cache import NormalizedCache
from nightreign_corpus.pipeline import SourceDocument, embed_chunks, normalize_records


def read_documents(path):
    """Yield SourceDocuments from a JSONL file of {url, html, record} lines."""
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
                yield SourceDocument(url=row["url"], html=row["html"], record=row["record"])
            except (ValueError, KeyError, TypeError) as exc:
                print(f"Skipping line {line_no}: {type(exc).__name__}: {exc}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Normalize parsed Nightreign records into the cache.")
    parser.add_argument("input", help="JSONL file with one {url, html, record} object per line")
    parser.add_argument("--cache-dir", default=None, help="Override NORMALIZED_CACHE_DIR")
    parser.add_argument("--force", action="store_true", help="Reprocess records even if cached")
    parser.add_argument("--embed", action="store_true", help="Embed the produced chunks")
    return parser.parse_args(argv)


async def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cache = NormalizedCache(cache_dir=args.cache_dir)
    summary = normalize_records(read_documents(args.input), cache, force_reprocess=args.force)
    print(summary.format())

    if not args.embed or not summary.chunks:
        return 0

    print(f"Embedding {len(summary.chunks)} chunks...")

    def report(done, total):
        print(f"  {done}/{total}")

    generator = get_embedding_generator()
    try:
        result = await embed_chunks(generator, summary.chunks, on_progress=report)
    except ModelLoadError as exc:
        print(f"Embedding aborted: {exc}")
        return 1
    finally:
        dispose_embedding_generator()

    print(f"Embedded {len(result.embedded)} chunks, {len(result.failed)} failed.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
