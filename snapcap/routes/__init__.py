"""
SnapCap Backend: API Routes Package
=====================================

Route Inventory:
    - auth.py:          /api/auth           register, login, logout, refresh-token, me, verify
    - users.py:         /api/users          profiles, avatar, follow, block, location
    - posts.py:         /api/posts          feed, trending, explore, CRUD, like, save, share,
                                            generate-caption
    - comments.py:      /api/comments       threaded comments, likes, pins
    - stories.py:       /api/stories        ephemeral stories, frames, views, cleanup
    - duets.py:         /api/duets          image responses to posts
    - chat.py:          /api/chat           conversations and messages
    - notifications.py: /api/notifications  listing and read state
    - search.py:        /api/search         users, posts, hashtags, trending
    - friends.py:       /api/friends        followed users and chat shortcuts
    - media.py:         /media/{publicId}   stored uploads
    - health.py:        /health             service health check

Routes stay thin: parse the request, call a service, wrap the result in
the `{success, message, data}` envelope. Business rules live in services.
"""
