import msgspec


DATA = (
    "While the exact amount of text data in a kilobyte (KB) or megabyte (MB) can vary "
    "depending on the nature of a document, a kilobyte can hold about half of a page of text, while a megabyte "
    "holds about 500 pages of text."
)


class ProbeDocument(msgspec.Struct, rename="pascal"):
    """
    Body of durability and latency documents.

    Serialized field names (`Name`, `EventTye`, `Team`, `Counter`, `Data`)
    must stay stable: existing durability indices are searched on `Counter`.
    """

    name: str
    event_tye: str
    counter: int = 1
    team: str = "nosql"
    data: str = DATA


def durability_document(counter: int) -> ProbeDocument:
    return ProbeDocument(
        name=f"document-{counter}",
        event_tye="durability",
        counter=counter,
    )


def latency_document(document_id: str) -> ProbeDocument:
    return ProbeDocument(
        name=document_id,
        event_tye="search",
    )
