"""Redis Lua script for atomic token bucket refill-and-consume.

Redis runs the whole script without interleaving other commands, so
reading the bucket, refilling it and taking a token happen as one step
for every caller on every instance.
"""

# KEYS[1]: token count, KEYS[2]: last refresh timestamp (epoch ms)
# ARGV[1]: tokens gained per ms, ARGV[2]: capacity, ARGV[3]: now (epoch ms)
# ARGV[4]: tokens requested, ARGV[5]: key expiry in ms
# A missing token key is a full bucket, so expiring idle keys is harmless.
# Lua numbers are truncated to integers in replies; counts are returned as strings.
TOKEN_BUCKET_SCRIPT = """
local tokens_key = KEYS[1]
local timestamp_key = KEYS[2]

local tokens_per_ms = tonumber(ARGV[1])
local capacity = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local requested = tonumber(ARGV[4])
local ttl = tonumber(ARGV[5])

local last_tokens = tonumber(redis.call('GET', tokens_key))
if last_tokens == nil then
  last_tokens = capacity
end

local last_refreshed = tonumber(redis.call('GET', timestamp_key))
if last_refreshed == nil then
  last_refreshed = 0
end

local delta = math.max(0, now - last_refreshed)
local filled_tokens = math.min(capacity, last_tokens + (delta * tokens_per_ms))
local allowed = filled_tokens >= requested
local new_tokens = filled_tokens
if allowed then
  new_tokens = filled_tokens - requested
end

redis.call('SET', tokens_key, tostring(new_tokens), 'PX', ttl)
redis.call('SET', timestamp_key, tostring(now), 'PX', ttl)

local allowed_flag = 0
if allowed then
  allowed_flag = 1
end
return {allowed_flag, tostring(new_tokens), tostring(last_tokens), tostring(filled_tokens)}
"""
