"""
auctionhouse

A live auction engine for marketplace deal rooms:
- Invitation-only timed auctions started by the seller
- Serialized bid admission with minimum increments
- Scheduled close with winner determination
- Real-time fan-out and downstream order events
"""
