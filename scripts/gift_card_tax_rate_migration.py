#!/usr/bin/env python3
"""
Backfill gift_cards.tax_rate from the owning region's tax rate.
Run once after the schema migration that adds the column; re-running is a no-op.
"""

import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backfills.gift_card_tax_rate import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
