"""
fulfillment_services -- orchestration over module services.

    repository        DocumentRepository protocol, InMemoryRepository
    sql_repository    SqlAlchemyRepository (Session + optimistic versions)
    orm               DocumentSequenceModel (document numbering counters)
    requests          payload parsing into typed requests
    engine            FulfillmentEngine facade and EngineResult

Import submodules directly; this package imports nothing eagerly because
``fulfillment_modules._orm_registry`` loads ``fulfillment_services.orm``.
"""
