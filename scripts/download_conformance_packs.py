#!/usr/bin/env python3
"""
Downloads the AWS Config conformance pack templates the hardening stack includes
"""
import argparse

from account_hardening.conformance_packs import (
    CONFORMANCE_PACKS,
    TEMPLATE_DIR,
    download_templates
)


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip())
    parser.add_argument(
        "packs", nargs="*", choices=sorted(CONFORMANCE_PACKS),
        help="packs to download (default: all)"
    )
    parser.add_argument(
        "--dir", default=TEMPLATE_DIR,
        help=f"target directory (default: {TEMPLATE_DIR})"
    )
    args = parser.parse_args(argv)

    downloaded = download_templates(args.packs or None, base_dir=args.dir)

    print(f"\n✅ All done! {len(downloaded)} template(s) in {args.dir}")
    for name, path in downloaded.items():
        print(f"   {name}: {path}")


if __name__ == "__main__":
    main()
