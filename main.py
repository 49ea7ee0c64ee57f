import argparse
import asyncio
import signal
import logging

from config import get_settings
from database import init_db, get_pool, close as db_close
from discounts import DiscountValidator
from events import EventStore
from fulfillment import PrintfulFulfiller
from ipfs import IPFSClient
from monitor import EventIngestor, EventMonitor
from networks import NetworkManager
from notifications import DiscordNotifier, EmailNotifier
from offers import OfferDecryptor
from orders import OrderManager, OrderReconciler
from payments import ExternalPaymentManager, StripeRefundProcessor
from shops import ShopManager

logger = logging.getLogger(__name__)

def build_monitor(pool, settings) -> EventMonitor:
    """Wire the event pipeline on top of a database pool."""
    ipfs = IPFSClient(timeout=settings['ipfs_timeout'])
    shops = ShopManager(pool)
    networks = NetworkManager(pool)
    store = EventStore(pool)

    reconciler = OrderReconciler(
        shops=shops,
        orders=OrderManager(pool),
        ipfs=ipfs,
        decryptor=OfferDecryptor.from_settings(settings),
        discounts=DiscountValidator(pool),
        refunds=StripeRefundProcessor(ExternalPaymentManager(pool), ipfs, settings),
        email=EmailNotifier(settings),
        discord=DiscordNotifier(),
        fulfiller=PrintfulFulfiller(),
        settings=settings
    )
    ingestor = EventIngestor(networks, shops, store, reconciler)
    return EventMonitor(networks, ingestor, store, settings)

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Dshop marketplace event processor")
    subparsers = parser.add_subparsers(dest='command')

    replay = subparsers.add_parser('replay', help="Re-apply stored events of a block range")
    replay.add_argument('network_id', type=int)
    replay.add_argument('from_block', type=int)
    replay.add_argument('to_block', type=int, nargs='?')
    replay.add_argument('--send-email', action='store_true', help="Send new order emails")
    replay.add_argument('--send-discord', action='store_true', help="Post new orders to Discord")
    return parser.parse_args(argv)

async def main(argv=None):
    """Main application entry point."""
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings['log_level'],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        # Initialize database
        logger.info("Initializing database...")
        await init_db(settings['db_url'])
        pool = await get_pool()

        monitor = build_monitor(pool, settings)

        if args.command == 'replay':
            count = await monitor.replay(
                args.network_id,
                args.from_block,
                args.to_block,
                skip_email=not args.send_email,
                skip_discord=not args.send_discord
            )
            logger.info(f"Replayed {count} events")
            return

        # Register shutdown handlers
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, monitor.stop)

        await monitor.run()

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await db_close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
