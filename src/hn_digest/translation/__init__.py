"""Chinese translation and summarization through the batch alignment engine."""
