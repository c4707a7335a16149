"""Tools an LLM can call: cron scheduling, current time and web search."""