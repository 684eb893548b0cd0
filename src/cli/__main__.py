# src/cli/__main__.py
import sys, json, os
from pathlib import Path

from src.core.errors import OrderLinkError
from src.services.order_document import render_review_page
from src.services.order_normalizer import normalize_order
from src.services.order_token import OrderTokenCodec, StaticSecret, order_url

USAGE = """Usage:
  python -m src.cli sign <payload.json> [--base-url=URL]
  python -m src.cli verify <token>
  python -m src.cli decode <token>
  python -m src.cli render <token> [--out=out.html]

ORDER_SECRET must be set for sign/verify (and for decode/render of signed tokens).

Examples:
  python -m src.cli sign examples/offer.json --base-url=https://shop.example.com
  python -m src.cli render eyJvZmZlcklkIjoi... --out=order.html
"""


def _load_json(p: str):
    try:
        return json.loads(Path(p).read_text(encoding="utf-8"))
    except Exception as e:
        print(f"Error reading JSON '{p}': {e}", file=sys.stderr)
        sys.exit(2)


def _codec() -> OrderTokenCodec:
    return OrderTokenCodec(StaticSecret(os.getenv("ORDER_SECRET", "")))


def _option(args, name: str, default=None):
    prefix = f"--{name}="
    for arg in args:
        if arg.startswith(prefix):
            return arg.split("=", 1)[1]
    return default


def main(argv=None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if len(argv) < 2:
        print(USAGE, file=sys.stderr)
        return 1

    cmd = argv[0].lower()
    arg = argv[1]
    rest = argv[2:]
    codec = _codec()

    try:
        if cmd == "sign":
            order = normalize_order(_load_json(arg))
            token = codec.sign(order)
            base_url = _option(rest, "base-url", os.getenv("ORDER_BASE_URL", "http://localhost:8000"))
            print(json.dumps({"offerId": order.offer_id, "token": token, "url": order_url(base_url, token)}))
            return 0

        if cmd == "verify":
            print(json.dumps(codec.verify(arg), ensure_ascii=False, indent=2))
            return 0

        if cmd == "decode":
            decoded = codec.decode(arg)
            print(json.dumps({"path": decoded.path, "payload": decoded.payload}, ensure_ascii=False, indent=2))
            return 0

        if cmd == "render":
            order = normalize_order(codec.decode(arg).payload)
            html = render_review_page(
                order,
                token=arg,
                company_name=os.getenv("COMPANY_NAME", "xVoice UC"),
                currency=os.getenv("CURRENCY", "€"),
            )
            out_path = _option(rest, "out")
            if out_path:
                Path(out_path).write_text(html, encoding="utf-8")
            else:
                sys.stdout.write(html)
            return 0
    except OrderLinkError as e:
        detail = f" ({', '.join(e.missing)})" if getattr(e, "missing", None) else ""
        print(f"Error [{e.reason}]: {e.message}{detail}", file=sys.stderr)
        return 2

    print(USAGE, file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
