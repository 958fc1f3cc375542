import asyncio
import json
import uuid

from transports import NatsTransport


async def main():
    transport = NatsTransport(["nats://localhost:4222"], name="requester-example")
    # request a total from the replier example
    msg = {
        "id": str(uuid.uuid4()),
        "pattern": "orders.total",
        "data": {"order_id": "ORD-1", "amount": 9.99, "quantity": 3},
    }
    print("Client Message: ", msg)
    reply = await transport.request("orders.total", json.dumps(msg).encode(), timeout=5)
    print("Reply:", json.loads(reply))

if __name__ == "__main__":
    asyncio.run(main())
