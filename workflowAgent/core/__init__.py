"""Task state: workflow graph, audit chain, contexts and cancellation."""
