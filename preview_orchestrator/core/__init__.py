# Core package - configuration, connections and shared errors
