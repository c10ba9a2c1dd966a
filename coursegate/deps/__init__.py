# Marks `coursegate.deps` as a package so `from coursegate.deps.gate import page_gate` works reliably.
