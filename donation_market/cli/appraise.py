import argparse
from datetime import date
from decimal import Decimal, InvalidOperation

from donation_market.models.schemas import Category, Condition
from donation_market.services.valuation import appraise, policy_for


def _prompt_decimal(label, default=None):
    while True:
        suffix = f" [{default}]" if default is not None else ""
        raw = input(f"{label}{suffix}: ").strip()
        if not raw and default is not None:
            return Decimal(str(default))
        try:
            value = Decimal(raw)
        except InvalidOperation:
            print("Please enter a valid amount.")
            continue
        if value <= 0:
            print("Value must be greater than 0.")
            continue
        return value


def _prompt_year(label, current_year):
    while True:
        raw = input(f"{label} [{current_year}]: ").strip()
        if not raw:
            return current_year
        if not (raw.isascii() and raw.isdigit()):
            print("Please enter a year such as 2019.")
            continue
        year = int(raw)
        if year > current_year:
            print("Purchase year cannot be in the future.")
            continue
        return year


def _prompt_choice(label, choices):
    options = "/".join(choices)
    while True:
        raw = input(f"{label} ({options}): ").strip()
        if raw in choices:
            return raw
        print(f"Please choose one of: {options}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Estimate the donation value of an item")
    parser.add_argument("--category", choices=[c.value for c in Category])
    parser.add_argument("--condition", choices=[c.value for c in Condition])
    parser.add_argument("--price", type=Decimal, help="Original purchase price")
    parser.add_argument("--year", type=int, help="Year of purchase")
    parser.add_argument("--appraisal", type=Decimal, help="Manual appraisal amount")
    parser.add_argument("--documented", action="store_true", help="The appraisal is backed by documents")
    args = parser.parse_args(argv)

    category = args.category or _prompt_choice("Category", [c.value for c in Category])
    allowed = sorted(c.value for c in policy_for(category).allowed_conditions)
    condition = args.condition or _prompt_choice("Condition", allowed)
    price = args.price if args.price is not None else _prompt_decimal("Original price")
    year = args.year if args.year is not None else _prompt_year("Purchase year", date.today().year)

    try:
        value = appraise(
            category,
            condition,
            price,
            year,
            appraisal=args.appraisal,
            appraisal_documented=args.documented,
        )
    except ValueError as e:
        print(f"Cannot estimate: {e}")
        return 1

    print(f"Estimated value: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
