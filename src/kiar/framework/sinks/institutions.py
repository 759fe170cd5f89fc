"""
Institution synchronisation.

Replaces the content of an institutions collection with one document per
published institution:

    delete_all → add(documents) → commit        (rollback on failure)

Participant, canton and display name use the same field names as object
documents so both collections can be filtered alike.
"""

from __future__ import annotations

from typing import Any

from kiar.core.errors import SinkError
from kiar.core.models.institution import Institution
from kiar.core.protocols import EntityStore, IndexClient
from kiar.framework.logging import log_step
from kiar.framework.pipelines.record import Field


def institution_document(institution: Institution) -> dict[str, Any]:
    document: dict[str, Any] = {
        Field.PARTICIPANT.value: institution.participant,
        Field.CANTON.value: institution.canton,
        Field.DISPLAY.value: institution.display_name,
        "name": institution.name,
        "name_s": institution.name,
        "description": institution.description,
        "street": institution.street,
        "city": institution.city,
        "zip": institution.zip,
        "email": institution.email,
        "website": institution.homepage,
    }
    if institution.isil is not None:
        document["isil"] = institution.isil
    if institution.default_license is not None:
        document["license"] = institution.default_license.short
    return document


def sync_institutions(store: EntityStore, client: IndexClient, collection: str) -> int:
    """Publish every institution flagged ``publish`` to ``collection``.

    Returns:
        The number of documents committed

    Raises:
        SinkError: An index call failed; the collection was rolled back
    """
    documents = [institution_document(i) for i in store.list_institutions(publish=True)]

    with log_step("institutions.sync", collection=collection) as step:
        try:
            client.delete_all(collection)
            if documents:
                client.add(collection, documents)
            client.commit(collection)
        except Exception as e:
            client.rollback(collection)
            raise SinkError(f"Synchronising institutions to {collection} failed: {e}", cause=e).with_context(
                collection=collection
            ) from e
        step.add_metric("documents", len(documents))

    return len(documents)
