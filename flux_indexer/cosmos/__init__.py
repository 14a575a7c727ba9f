"""Cosmos chain types, ABCI events and RPC response parsing."""