import asyncio
import logging

from dispatch import ReplyController
from transports import NatsTransport  # requires a NATS server: docker run -p 4222:4222 nats


async def main():
    logging.basicConfig(level=logging.DEBUG)
    controller = ReplyController(NatsTransport(["nats://localhost:4222"]))
    controller.set_logger(logging.getLogger("replybus"))
    controller.set_default_queue("orders-workers")

    @controller.reply_to("orders.total")
    def order_total(data):
        return {"order_id": data["order_id"], "total": round(data["amount"] * data.get("quantity", 1), 2)}

    @controller.reply_to("orders.echo", queue="echo-workers")
    async def echo(data):
        return data

    await controller.start()
    await controller.wait_until_ready(timeout=10)
    print("Replying... (press Ctrl+C to exit)")
    try:
        await asyncio.Event().wait()
    finally:
        await controller.stop()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
