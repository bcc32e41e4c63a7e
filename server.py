#!/usr/bin/env python3
"""
Checkout relay - entry point
"""

import asyncio
from relay.main import main

if __name__ == "__main__":
    asyncio.run(main())
