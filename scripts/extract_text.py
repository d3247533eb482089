from __future__ import annotations

import argparse

from booktranslate import storage
from booktranslate.epub_reader import EpubReader
from booktranslate.html_parser import DEFAULT_ALLOW_TAGS, DEFAULT_BLACKLIST_TAGS, extract_segments


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract the translatable lines of an EPUB without translating.")
    parser.add_argument("--file", required=True, help="Path to source EPUB")
    parser.add_argument("--out", required=True, help="Output JSON file")
    parser.add_argument("--tags", nargs="+", default=DEFAULT_ALLOW_TAGS, help="Tags whose text is kept (default: p)")
    parser.add_argument("--blacklist", nargs="+", default=DEFAULT_BLACKLIST_TAGS, help="Tags to skip (default: rt)")
    args = parser.parse_args()

    reader = EpubReader(args.file)
    pages = []
    for index, markup in reader.iter_pages():
        segments, total = extract_segments(markup, args.tags, args.blacklist)
        pages.append(
            {
                "page": index,
                "lines": total,
                "segments": [{"index": s.index, "text": s.text} for s in segments],
            }
        )

    storage.write_json(args.out, pages)
    print(f"Wrote {sum(len(p['segments']) for p in pages)} segments from {len(pages)} pages to {args.out}")


if __name__ == "__main__":
    main()
