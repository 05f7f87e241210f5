"""Feature modules built on the Nimbus OData core."""
