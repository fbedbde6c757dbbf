"""
Knowledge base articles for card servicing and fraud operations.
"""

from fraud_triage.tools.knowledge_base import KbChunk, KbDocument

ARTICLES = [
    {
        "id": "kb_card_freeze",
        "title": "Lost or Stolen Card: Freeze Procedure",
        "anchor": "card-lost-freeze",
        "chunks": [
            "When a customer reports a lost or stolen card, freeze the card immediately "
            "to block new authorizations.",
            "Freezing a card requires a one-time password (OTP) sent to the customer's "
            "registered device. The OTP expires after five minutes.",
            "Unfreezing a card requires identity verification and a handoff to a servicing agent.",
        ],
    },
    {
        "id": "kb_duplicate_preauth",
        "title": "Duplicate Charges and Pre-authorizations",
        "anchor": "duplicate-preauth",
        "chunks": [
            "A pending pre-authorization and a captured charge for the same merchant often "
            "look like a duplicate charge. The pending hold is released automatically.",
            "Explain the pre-authorization to the customer before opening a dispute. "
            "No dispute is needed when the pending hold drops off.",
        ],
    },
    {
        "id": "kb_disputes",
        "title": "Opening a Transaction Dispute",
        "anchor": "dispute-process",
        "chunks": [
            "Open a dispute only for captured transactions that have not expired and "
            "are not already disputed.",
            "Supported fraud reason codes are 10.4 through 10.8. Reason code 10.4 covers "
            "card-absent fraud.",
            "Disputes require customer confirmation before they are filed.",
        ],
    },
    {
        "id": "kb_geo_velocity",
        "title": "Geo-Velocity and Device Change Alerts",
        "anchor": "geo-velocity",
        "chunks": [
            "Transactions in many cities within a short period indicate a geo-velocity "
            "violation and possible card compromise.",
            "A new device combined with unusual locations raises the fraud risk score. "
            "Contact the customer to confirm recent travel.",
        ],
    },
    {
        "id": "kb_chargeback_escalation",
        "title": "Chargeback History Escalation",
        "anchor": "chargeback-escalation",
        "chunks": [
            "Customers with prior chargebacks are escalated to a team lead before any "
            "new dispute is opened.",
            "Record the chargeback count on the case and open a review case.",
        ],
    },
    {
        "id": "kb_travel_notice",
        "title": "Travel Notices",
        "anchor": "travel-notice",
        "chunks": [
            "Customers can set a travel notice with destination and travel dates to avoid "
            "declines while abroad.",
            "A travel notice lowers geo-velocity alerts for the listed destinations.",
        ],
    },
]


def build_kb_documents() -> list[KbDocument]:
    return [
        KbDocument(
            id=article["id"],
            title=article["title"],
            anchor=article["anchor"],
            chunks=[
                KbChunk(id=f"{article['id']}_{i}", content=text)
                for i, text in enumerate(article["chunks"])
            ],
        )
        for article in ARTICLES
    ]
