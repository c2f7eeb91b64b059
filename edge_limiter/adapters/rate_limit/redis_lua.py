"""Redis Lua script for the atomic window store mode.

Runs read, compare, increment and expire in one server-side step, which
removes the admission overshoot of the plain command sequence when many
instances hit the same key at once.

KEYS[1] block key, KEYS[2] count key.
ARGV[1] limit, ARGV[2] block duration (ms), ARGV[3] window length (ms).
Returns {allowed (0/1), retry_after_ms}.
"""

ALLOW_SCRIPT = """
    local block_key = KEYS[1]
    local count_key = KEYS[2]
    local limit = tonumber(ARGV[1])
    local block_ms = tonumber(ARGV[2])
    local window_ms = tonumber(ARGV[3])

    -- Blocked keys are denied without touching the counter
    local block_ttl = redis.call('PTTL', block_key)
    if block_ttl > 0 then
        return {0, block_ttl}
    end

    -- GET returns false for a missing key, tonumber(false) is nil
    local current = tonumber(redis.call('GET', count_key)) or 0

    if current >= limit then
        if block_ms > 0 then
            redis.call('SET', block_key, '1', 'PX', block_ms)
        end
        redis.call('DEL', count_key)
        return {0, block_ms}
    end

    redis.call('INCR', count_key)
    if current == 0 then
        redis.call('PEXPIRE', count_key, window_ms)
    end
    return {1, 0}
"""
