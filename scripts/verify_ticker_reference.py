#!/usr/bin/env python3
"""
Verify a ticker reference file before `farmwallet sync-tickers` uses it.

Every KR entry must be a six-character Korean listing code and every US
entry a US symbol; each entry needs a non-empty name.

Usage:
  python3 scripts/verify_ticker_reference.py [ticker.json]

Exit codes:
  0 = OK
  1 = Failure (prints JSON report with offending entries)
"""

import json
import sys
from typing import Any, Dict, List

from farmwallet.tickers.classify import market_for_ticker


def check_reference(path: str) -> Dict[str, Any]:
    offenders: List[Dict[str, Any]] = []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        return {'status': 'failed', 'checked': 0, 'offenders': [], 'parse_error': str(e)}

    checked = 0
    for market in ('KR', 'US'):
        items = data.get(market) if isinstance(data, dict) else None
        if not isinstance(items, list):
            offenders.append({'market': market, 'reason': 'missing list'})
            continue
        for i, item in enumerate(items):
            checked += 1
            ticker = str((item or {}).get('ticker') or '')
            name = str((item or {}).get('name') or '').strip()
            if not name:
                offenders.append({'market': market, 'index': i, 'ticker': ticker, 'reason': 'empty name'})
            elif market_for_ticker(ticker) != market:
                offenders.append({'market': market, 'index': i, 'ticker': ticker, 'reason': 'wrong market'})

    return {
        'status': 'ok' if not offenders else 'failed',
        'checked': checked,
        'offenders': offenders,
    }


def main() -> int:
    path = sys.argv[1] if len(sys.argv) > 1 else 'ticker.json'
    report = check_reference(path)
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0 if report['status'] == 'ok' else 1


if __name__ == '__main__':
    sys.exit(main())
