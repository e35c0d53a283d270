import argparse
import asyncio
import base64
import json
import sys
from typing import List, Optional

from shelfscan.config import Settings
from shelfscan.core.enricher import enrich_titles
from shelfscan.errors import RelayError
from shelfscan.llm_providers import create_llm_client
from shelfscan.preprocessing import image_dimensions, try_normalize_image


def _read_image(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_scan(args, settings: Settings) -> None:
    client = create_llm_client(settings)
    try:
        books = client.scan_books(_read_image(args.image))
    finally:
        client.close()
    _print_json({"books": [b.to_dict() for b in books]})


def cmd_titles(args, settings: Settings) -> None:
    client = create_llm_client(settings)
    try:
        titles = client.extract_book_titles(_read_image(args.image))
    finally:
        client.close()
    if args.no_enrich:
        _print_json({"titles": titles})
        return
    books = asyncio.run(enrich_titles(titles, settings))
    _print_json({"books": [b.to_dict() for b in books]})


def cmd_lookup(args, settings: Settings) -> None:
    books = asyncio.run(enrich_titles(args.titles, settings))
    _print_json({"books": [b.to_dict() for b in books]})


def cmd_compress(args, settings: Settings) -> None:
    data = _read_image(args.image)
    result = try_normalize_image(data)
    original_size = len(base64.b64encode(data))
    compressed_size = len(base64.b64encode(result.data))
    stats = {
        "originalSize": original_size,
        "compressedSize": compressed_size,
        "savingsPercent": f"{(original_size - compressed_size) / original_size * 100:.2f}%" if original_size else "0.00%",
    }
    if result.error is not None:
        stats["error"] = str(result.error)
    else:
        width, height = image_dimensions(result.data)
        stats["dimensions"] = f"{width}x{height}"
        if args.output:
            with open(args.output, "wb") as f:
                f.write(result.data)
            stats["output"] = args.output
    _print_json(stats)


def cmd_serve(args, settings: Settings) -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=args.host, port=args.port or settings.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shelfscan", description="Bookshelf vision relay tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("scan", help="Extract full book records from a bookshelf photo")
    p.add_argument("image", type=str)
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("titles", help="Extract titles from a bookshelf photo and look them up")
    p.add_argument("image", type=str)
    p.add_argument("--no-enrich", action="store_true", help="Print the raw titles only")
    p.set_defaults(func=cmd_titles)

    p = sub.add_parser("lookup", help="Look titles up on Google Books")
    p.add_argument("titles", nargs="+")
    p.set_defaults(func=cmd_lookup)

    p = sub.add_parser("compress", help="Show how much an image shrinks before upload")
    p.add_argument("image", type=str)
    p.add_argument("-o", "--output", type=str, default=None, help="Write the compressed JPEG here")
    p.set_defaults(func=cmd_compress)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", type=str, default="0.0.0.0")
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    try:
        args.func(args, settings)
    except RelayError as e:
        print(f"Error ({e.status_code}): {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
