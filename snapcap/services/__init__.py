"""
SnapCap Backend: Services Layer
=================================

Business rules between routes (HTTP) and models (persistence). Each module
exposes one singleton (`post_service`, `chat_service`, ...). Services take
an AsyncSession and flush; the request dependency commits.

Service Inventory:
    - security:             password hashing, JWT issue/verify
    - auth_service:         register, login, refresh-token rotation, logout
    - user_service:         profiles, follow graph, blocks, location, presence
    - post_service:         feed, trending, explore, CRUD, likes, saves, shares
    - comment_service:      threaded comments, likes, pins
    - duet_service:         image responses to posts
    - story_service:        ephemeral stories and views
    - chat_service:         conversations, messages, unread counters
    - notification_service: creation rules (no self, one hour dedupe), read state
    - search_service:       users, posts, hashtags, trending hashtags
    - friend_service:       followed users shaped for the friends list and map
    - storage_service:      upload policies and local media storage
    - caption_service:      AI captions with offline fallback (llm_base, gemini_service)
"""
