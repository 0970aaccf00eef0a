"""
Print a quote with its parts, variants and action history.

Usage:
  python -m scripts.check_quote 42
"""
import sys

from dotenv import load_dotenv

from core.database import get_quote, get_quote_actions_by_quote_id
from core.errors import QuoteNotFound
from core.quoting import effective_price, format_currency, quote_total


def main():
    load_dotenv(override=True)
    if len(sys.argv) < 2 or not sys.argv[1].isdigit():
        print("Usage: python -m scripts.check_quote <quote id>")
        sys.exit(1)

    quote_id = int(sys.argv[1])
    try:
        quote = get_quote(quote_id)
    except QuoteNotFound:
        print(f"No quote with id {quote_id}")
        sys.exit(1)

    print(f"Quote {quote['quote_ref']} [{quote['status']}] {quote.get('make')} {quote.get('model')}")
    print(f"  customer: {quote.get('customer')} {quote.get('phone') or ''}")
    for part in quote["parts"]:
        print(f"  - {part['part_name']} {part['part_number'] or '-'} {format_currency(effective_price(part)) or 'unpriced'}")
        for v in part["variants"]:
            marker = "*" if v.get("is_default") else " "
            print(f"      {marker} {format_currency(v['final_price'])} {v.get('note') or ''}")
    print(f"  total: {format_currency(quote_total(quote['parts']))}")

    print("History:")
    for action in get_quote_actions_by_quote_id(quote_id):
        print(f"  {action['timestamp']} {action['action_type']} by {action.get('user_name') or 'system'}")


if __name__ == "__main__":
    main()
