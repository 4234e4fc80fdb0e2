"""
Setup Verification Script
=========================
Run this to verify Tradecast is configured correctly.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))


async def verify_setup():
    """Verify all components are properly configured."""
    print("=" * 60)
    print("TRADECAST - SETUP VERIFICATION")
    print("=" * 60)

    errors = []
    warnings = []

    # 1. Check imports
    print("\n[1/5] Checking imports...")
    try:
        from tradecast.core.config import settings
        print("  ✓ Core configuration loaded")
    except Exception as e:
        errors.append(f"Failed to import config: {e}")
        print(f"  ✗ Configuration error: {e}")
        return 1

    try:
        from tradecast.database.models import TradeRow, DeliveryRecordRow
        print("  ✓ Database models loaded")
    except Exception as e:
        errors.append(f"Failed to import models: {e}")
        print(f"  ✗ Models error: {e}")

    try:
        from tradecast.notifications.telegram import TelegramTransport
        print("  ✓ Telegram transport loaded")
    except Exception as e:
        errors.append(f"Failed to import telegram transport: {e}")
        print(f"  ✗ Telegram error: {e}")

    # 2. Validate configuration
    print("\n[2/5] Validating configuration...")
    config_warnings = settings.validate_runtime_config()
    for w in config_warnings:
        warnings.append(w)
        print(f"  ⚠ {w}")
    if not config_warnings:
        print("  ✓ Configuration valid")

    # 3. Render a sample message
    print("\n[3/5] Rendering sample template...")
    try:
        from tradecast.domain.models import MessageTemplate, Trade, TradeSide
        from tradecast.notifications.renderer import TemplateRenderer

        trade = Trade(
            trade_id="verify_1",
            pair="BTC_USDT",
            side=TradeSide.BUY,
            price=Decimal("65000"),
            leverage=Decimal("10"),
        )
        template = MessageTemplate(name="verify", body="{type} {pair} @ {price} ({leverage})")
        rendered = TemplateRenderer(settings.timezone).render(template, trade)
        print(f"  ✓ {rendered.text}")
    except Exception as e:
        errors.append(f"Template rendering failed: {e}")
        print(f"  ✗ Rendering error: {e}")

    # 4. Check environment
    print("\n[4/5] Checking environment...")
    print(f"  Environment: {settings.app_env.value}")
    print(f"  Debug mode: {settings.debug}")
    print(f"  Log level: {settings.log_level}")
    print(f"  Timezone: {settings.timezone}")
    print(f"  Telegram: {'ENABLED' if settings.telegram_enabled else 'DISABLED'}")
    if settings.telegram_enabled and not settings.telegram_bot_token:
        errors.append("Telegram enabled but TELEGRAM_BOT_TOKEN is not set")
        print("  ✗ Telegram bot token missing")
    elif settings.telegram_enabled:
        print("  ✓ Telegram bot token present")

    # 5. Database configuration
    print("\n[5/5] Database configuration...")
    print(f"  DB URL: {settings.db_url[:50]}...")
    print("  ✓ Database configuration present")

    # Summary
    print("\n" + "=" * 60)
    print("VERIFICATION SUMMARY")
    print("=" * 60)

    if errors:
        print(f"\n❌ ERRORS ({len(errors)}):")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print(f"\n⚠ WARNINGS ({len(warnings)}):")
        for w in warnings:
            print(f"   - {w}")

    if not errors:
        print("\n✅ All core components verified successfully!")
        print("\nNext steps:")
        print("  1. Create a .env with TELEGRAM_BOT_TOKEN and database settings")
        print("  2. Run: tradecast")
    else:
        print("\n❌ Some components failed verification. Please fix errors above.")
        return 1

    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(verify_setup())
    sys.exit(exit_code)
