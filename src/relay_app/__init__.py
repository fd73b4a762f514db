"""FastAPI front end for the chat relay."""
