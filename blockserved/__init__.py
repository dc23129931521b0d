"""BlockServed transaction staging backend."""
