"""HTTP and Socket.IO entry points."""
